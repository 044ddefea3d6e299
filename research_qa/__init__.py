"""
Research QA - answers questions against a personal research paper library
"""

__version__ = "1.0.0"

__all__ = [
    "AnswerLifecycleManager",
    "QuestionService",
    "ResearchQuestion",
    "Finding",
    "Settings",
    "__version__",
]

def __getattr__(name: str):
    """Lazy import to avoid import-time side effects."""
    if name == "AnswerLifecycleManager":
        from research_qa.lifecycle import AnswerLifecycleManager
        return AnswerLifecycleManager
    elif name == "QuestionService":
        from research_qa.questions import QuestionService
        return QuestionService
    elif name == "ResearchQuestion":
        from research_qa.models import ResearchQuestion
        return ResearchQuestion
    elif name == "Finding":
        from research_qa.models import Finding
        return Finding
    elif name == "Settings":
        from research_qa.config.settings import Settings
        return Settings
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
