"""
Custom exceptions for the research question system
"""


class ResearchQAError(Exception):
    """Base exception for research question system"""
    pass


class ConfigurationError(ResearchQAError):
    """Configuration related errors"""
    pass


class LanguageValidationError(ResearchQAError):
    """Generated text failed the conservative language check"""
    def __init__(self, message: str, text: str = "", term: str = None):
        super().__init__(message)
        self.text = text
        self.term = term


class CollaboratorError(ResearchQAError):
    """Evidence or synthesis collaborator failed (error, timeout, malformed response)"""
    def __init__(self, message: str, collaborator: str = None, paper_id: str = None):
        super().__init__(message)
        self.collaborator = collaborator
        self.paper_id = paper_id


class APIError(CollaboratorError):
    """LLM provider API errors"""
    def __init__(self, message: str, provider: str = None, status_code: int = None):
        super().__init__(message, collaborator=provider)
        self.provider = provider
        self.status_code = status_code


class RateLimitError(APIError):
    """Rate limit exceeded"""
    pass


class MalformedResponseError(CollaboratorError):
    """LLM response could not be parsed into the expected shape"""
    pass


class InvalidQuestionError(ResearchQAError):
    """Question text is empty or otherwise unusable"""
    pass


class NotFoundError(ResearchQAError):
    """Requested entity does not exist"""
    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class QuestionNotFoundError(NotFoundError):
    """Research question does not exist"""
    def __init__(self, question_id: str):
        super().__init__("Question", question_id)


class FindingNotFoundError(NotFoundError):
    """Finding does not exist"""
    def __init__(self, finding_id: str):
        super().__init__("Finding", finding_id)


class PersistenceError(ResearchQAError):
    """Storage layer failure; surfaced to the caller without retry"""
    def __init__(self, message: str, operation: str = None):
        super().__init__(message)
        self.operation = operation
