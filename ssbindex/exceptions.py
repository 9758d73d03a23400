class SsbIndexError(Exception):
    """Base exception for index errors"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class MessageNotFound(SsbIndexError):
    """Raised when no indexed message has the requested key"""
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Could not find message in db: {key}")


class FeedNotFound(SsbIndexError):
    """Raised when the requested author has no indexed messages"""
    def __init__(self, author: str):
        self.author = author
        super().__init__(f"Could not find feed in db: {author}")


class UnableToGetLatestSequence(SsbIndexError):
    """Raised when the latest indexed log offset cannot be read"""
    def __init__(self, message: str = "Could not get the latest sequence number from the db"):
        super().__init__(message)


class SqliteAppendError(SsbIndexError):
    """Raised when a chunk of log entries could not be appended to the index"""
    def __init__(self, message: str = "Could not batch append to sqlite db"):
        super().__init__(message)
