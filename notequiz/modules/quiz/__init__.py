"""
Quiz sessions: the lifecycle engine and its persistence gateway.
"""

from notequiz.modules.quiz.gateway import PersistenceGateway
from notequiz.modules.quiz.service import AnswerResult, QuizSessionEngine
from notequiz.modules.quiz.sql_gateway import SqlPersistenceGateway

__all__ = [
    "PersistenceGateway",
    "SqlPersistenceGateway",
    "QuizSessionEngine",
    "AnswerResult",
]
