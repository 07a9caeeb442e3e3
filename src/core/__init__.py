"""
Core business logic for video ingestion.

This module is framework-agnostic - it doesn't import FastAPI, boto3,
or any infrastructure concerns. ffprobe, ffmpeg and object storage are
reached only through the protocols in videos.pipeline, so the pipeline
can be tested in isolation.
"""
