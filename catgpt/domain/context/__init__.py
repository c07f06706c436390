# This module handles the conversation context window

# +---------------------+
# |   Context Store     |   (In-process, bounded, per user)
# |---------------------|
# | Last 10 turns       |
# | Per-user lock       |
# +---------------------+

#    \    /
#     \  /
#      \/
# +------------------------------+
# |      Inference Request       |   (Assembled fresh for every call)
# |------------------------------|
# | Model identifier             |
# | Ordered turns (user/asst)    |
# | stream = false               |
# +------------------------------+
#         |
#         v
#   [Ollama /api/chat]
