"""
KS Forward digest - summarize the latest KS Forward video into Discord

Modules:
    search: find the newest matching video on the channel
    transcripts: fetch transcripts, cache them, or serve the mock sample
    summarizer: summarize a transcript with the AI endpoint
    notify: split the summary into embeds and post them to Discord
    pipeline: run the stages in order and report Done or Failed
"""

__version__ = "0.3.0"

from .cache import TranscriptCache
from .pipeline import DigestPipeline, Done, Failed, Stage, build_pipeline
from .settings import Settings

__all__ = [
    "DigestPipeline",
    "Done",
    "Failed",
    "Settings",
    "Stage",
    "TranscriptCache",
    "build_pipeline",
]
