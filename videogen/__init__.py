"""Asynchronous orchestration of text-to-video generation jobs and batches."""

__version__ = "0.1.0"
