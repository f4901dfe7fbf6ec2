from .http_answer_service import DEFAULT_FILL_PATH, HttpAnswerService

__all__ = ["HttpAnswerService", "DEFAULT_FILL_PATH"]
