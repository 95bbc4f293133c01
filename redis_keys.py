REDIS_HISTORY_KEY = "room:history:{slug}" # room id - list of JSON encoded messages

# **Example `room:history:{id}` list entries**
# - `{"sender": "Stranger", "text": "hi", "time": "14:05"}`
# Entries are appended with RPUSH and read back in order with LRANGE 0 -1.
# The key is deleted as soon as either peer leaves or disconnects; the TTL
# only bounds keys orphaned by a crashed process.
