"""
Video Fact-Checker API — packaging script.

Usage:
    # Development (editable install):
    pip install -e .[test]

    # Run the service:
    video-fact-checker
"""

from setuptools import setup, find_namespace_packages

APP_NAME = "video-fact-checker"

setup(
    name=APP_NAME,
    version="1.0.0",
    description="Transcribe online videos and fact-check the claims they make",
    packages=find_namespace_packages(include=["factchecker", "factchecker.*"]),
    py_modules=["main"],
    install_requires=[
        "requests>=2.28.0",
        "flask>=2.3",
        "yt-dlp",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "video-fact-checker=main:main",
        ],
    },
    python_requires=">=3.10",
)
