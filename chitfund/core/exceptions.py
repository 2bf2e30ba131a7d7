"""
Domain exceptions shared across modules.

Services raise these; routers translate them into HTTP responses.
"""


class DocumentNotFoundError(LookupError):
    """A partial update or required read targeted a document that does not exist"""

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document {collection}/{doc_id} not found")


class UploadTimeoutError(TimeoutError):
    """A document write carrying encrypted images did not finish in time"""

    def __init__(self, message: str = "Network timeout. Please check your connection."):
        super().__init__(message)
