from examprep.connections.mongo import mongo_lifespan, init_mongo, close_mongo
from examprep.connections.redis import redis_lifespan, init_redis, close_redis, get_redis
