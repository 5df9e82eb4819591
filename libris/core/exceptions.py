class LibrisError(Exception): pass

class NotFoundError(LibrisError): pass

class BookNotFoundError(NotFoundError): pass

class ReaderNotFoundError(NotFoundError): pass

class LoanNotFoundError(NotFoundError): pass

class AlreadyBorrowedError(LibrisError): pass

class AlreadyReturnedError(LibrisError): pass

class RecordExistsError(LibrisError): pass

class BookBorrowedError(LibrisError): pass

class ReaderHasOpenLoansError(LibrisError): pass

class InvalidRecordError(LibrisError): pass

class StorageFailureError(LibrisError): pass

class MonthlyLimitExceededError(LibrisError):

    def __init__(self, count, limit, message=None):
        self.count = count
        self.limit = limit
        super().__init__(
            message or f"Reader already has {count} loan(s) this month (limit {limit})."
        )
