from testseries.models.tag import Tag
from testseries.models.question import Question
from testseries.models.test import Test, TestQuestion
from testseries.models.attempt import Attempt

__all__ = ["Tag", "Question", "Test", "TestQuestion", "Attempt"]
