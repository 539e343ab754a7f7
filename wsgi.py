# wsgi.py
import atexit

from crosspost import create_publish_app
from crosspost.services.social.runtime import shutdown_runtime

application = create_publish_app()

# release Mongo / Redis connections when the server process exits
atexit.register(shutdown_runtime)
