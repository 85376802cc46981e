"""
Lua scripts backing the lock primitives.

Each script runs server-side as a single indivisible step, so the
read-check-write sequences below can never interleave with another client.
"""
from redis.asyncio import Redis

# Acquire a lock record if none exists
# param: keys[1] - lock key (<namespace>:<id>)
# param: keys[2] - namespace counter key (<namespace>index)
# param: argv[1] - ttl in milliseconds
# returns: {1, index, ttl} on success, {0, -1, remaining pttl} otherwise
ACQUIRE_SCRIPT = """
local ttl = tonumber(ARGV[1])
if redis.call("EXISTS", KEYS[1]) == 1 then
    return {0, -1, redis.call("PTTL", KEYS[1])}
end
-- signed 64bit counter shared by every id in the namespace
local index = redis.call("INCR", KEYS[2])
redis.call("HSET", KEYS[1], "index", index)
redis.call("PEXPIRE", KEYS[1], ttl)
return {1, index, ttl}
"""

# Release the lock record only if it still carries the caller's index
# param: keys[1] - lock key
# param: argv[1] - expected index
# param: argv[2] - release channel
# returns: {success, status, index}
RELEASE_SCRIPT = """
local index = tonumber(ARGV[1])
if redis.call("EXISTS", KEYS[1]) == 0 then
    return {1, "expired", 0}
end
local current = tonumber(redis.call("HGET", KEYS[1], "index"))
if current == index then
    redis.call("DEL", KEYS[1])
    redis.call("PUBLISH", ARGV[2], KEYS[1])
    return {1, "released", current}
end
return {0, "conflict", current}
"""

# Reset the expiry of the lock record if it still carries the caller's index
# param: keys[1] - lock key
# param: argv[1] - expected index
# param: argv[2] - new ttl in milliseconds
# returns: {success, status, index}
RENEW_SCRIPT = """
local index = tonumber(ARGV[1])
if redis.call("EXISTS", KEYS[1]) == 0 then
    return {0, "missing", -1}
end
local current = tonumber(redis.call("HGET", KEYS[1], "index"))
if current ~= index then
    return {0, "conflict", -1}
end
redis.call("PEXPIRE", KEYS[1], tonumber(ARGV[2]))
return {1, "renewed", current}
"""


class LockScripts:
    """Scripts registered against one command connection (EVALSHA with EVAL fallback)."""

    def __init__(self, redis: Redis):
        self.acquire = redis.register_script(ACQUIRE_SCRIPT)
        self.release = redis.register_script(RELEASE_SCRIPT)
        self.renew = redis.register_script(RENEW_SCRIPT)
