class Topics:
    """Centralised Kafka topic definitions"""

    # Repository change streams published by other writers
    LOG_CHANGES = "conditioning_log_changes"
    USER_CHANGES = "user_changes"

    @classmethod
    def all_change_topics(cls) -> list[str]:
        """Get all repository change topics"""
        return [cls.LOG_CHANGES, cls.USER_CHANGES]
