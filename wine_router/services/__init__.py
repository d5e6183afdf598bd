"""Services module for the wine question router."""

from .inference import InferenceEngine
from .knowledge_synthesis import KnowledgeSynthesizer
from .router import QuestionRouter
from .training_pipeline import ModelTrainingPipeline, build_training_examples

__all__ = [
    'InferenceEngine',
    'KnowledgeSynthesizer',
    'QuestionRouter',
    'ModelTrainingPipeline',
    'build_training_examples',
]
