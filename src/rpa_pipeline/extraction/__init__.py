# ABOUTME: Message understanding - classification and structured field extraction
# ABOUTME: Pipeline Stage 1: raw text → label + typed payload

"""
Extraction Layer: Turn free-form request text into typed data

This layer handles:
- Tiered heuristic classification of a message into a job type
- Labeled-field extraction of credentials, job cards and estimation groups

Data Flow: raw message → extraction/ → core/ ingestion → persistence/
"""

from .classifier import Classifier
from .extractor import Extractor

__all__ = ["Classifier", "Extractor"]
