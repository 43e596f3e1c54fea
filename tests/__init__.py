"""
Test package for crf_tuner.

Unit tests drive the search, sampler and scorer through tests.fakes.FakeToolkit
so no external process runs; integration tests need ffmpeg/ffprobe on PATH.
"""
