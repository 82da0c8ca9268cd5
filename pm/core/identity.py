import uuid


def new_session_id() -> str:
    """
    Opaque id tagging this session's create/vote/delete calls.
    Lives in memory only; not a credential.
    """
    return uuid.uuid4().hex
