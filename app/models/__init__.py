"""
Models package initialization
Import all models and setup relationships
"""

from .practice import PracticeTest
from .progress import TestProgress
from .question import Question

# Import and setup relationships
from .relations import setup_relationships
from .result import Result
from .user import User

# Setup all relationships after models are imported
setup_relationships()

# Make models available at package level
__all__ = [
    "PracticeTest",
    "Question",
    "Result",
    "TestProgress",
    "User",
]
