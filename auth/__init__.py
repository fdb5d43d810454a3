"""
auth — caller authentication.

Provides signed bearer-token creation / verification and the
``get_current_user_id`` FastAPI dependency.
"""
