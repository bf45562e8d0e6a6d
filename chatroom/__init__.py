"""
chatroom
~~~~~~~~

实时多人聊天室后端。
"""
