from .db import db, redis_connection
