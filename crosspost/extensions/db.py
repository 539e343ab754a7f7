import os
from dotenv import load_dotenv
from pymongo import MongoClient
from redis import Redis

load_dotenv()


class MongoDB:
    def __init__(self):
        self.client = None
        self.db = None

    def init_app(self, app):
        self.connect(
            app.config.get("MONGO_URI") or os.getenv("MONGO_URI", "mongodb://localhost:27017/crosspost"),
            app.config.get("DB_NAME") or os.getenv("DB_NAME", "crosspost"),
        )
        app.mongo = self.db

    def connect(self, uri, db_name):
        # connect=False defers the socket until first use, safe across worker forks
        self.client = MongoClient(uri, connect=False, tz_aware=True)
        self.db = self.client[db_name]
        return self.db

    def get_collection(self, name):
        if self.db is None:
            raise RuntimeError("MongoDB not initialized")
        return self.db[name]

    def close(self):
        if self.client is not None:
            self.client.close()
        self.client = None
        self.db = None


class RedisConnection:
    def __init__(self):
        self.connection = None

    def init_app(self, app):
        self.connect(app.config.get("REDIS_URL") or os.getenv("REDIS_URL", "redis://localhost:6379/0"))
        app.redis = self.connection

    def connect(self, url):
        self.connection = Redis.from_url(url)
        return self.connection

    def close(self):
        if self.connection is not None:
            self.connection.close()
        self.connection = None


# Export the instances
db = MongoDB()
redis_connection = RedisConnection()
