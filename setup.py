"""
chunkscribe — setuptools build script.

Usage:
    # Development (editable install):
    pip install -e .[tests]

    # Run:
    chunkscribe transcribe talk.mp4 --wait --output transcripts/
"""

from setuptools import setup, find_namespace_packages

APP_NAME = "chunkscribe"

setup(
    name=APP_NAME,
    version="1.0.0",
    description="Chunked long-form media transcription with durable background jobs",
    packages=find_namespace_packages(include=["chunkscribe", "chunkscribe.*"]),
    py_modules=["main"],
    install_requires=[
        "requests>=2.28.0",
    ],
    extras_require={
        "tests": ["pytest>=7.0"],
    },
    python_requires=">=3.10",
    entry_points={
        "console_scripts": [
            "chunkscribe=main:main",
        ],
    },
)
