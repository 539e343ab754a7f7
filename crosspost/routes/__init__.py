from ..resources import blp_social_publish


def register_publish_routes(app, api):
    api.register_blueprint(blp_social_publish, url_prefix="/api/v1")
