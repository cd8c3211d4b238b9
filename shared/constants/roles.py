class Roles:
    """Role names issued by the auth service and understood here."""

    ADMIN = "admin"
    USER = "user"
