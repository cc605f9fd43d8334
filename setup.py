"""
Setup script for studyset.

studyset is the study core of a flashcard application:

1. SM-2 scheduling - review intervals and due-date queries per card
2. Learn sessions - requeueing of missed cards, batch checkpoints, save/resume
3. Speech cache - byte-budgeted LRU cache of synthesized audio with pre-caching

The 'studyset' command is a maintenance CLI over the local stores.
"""

from setuptools import find_packages, setup

setup(
    name="studyset",
    version="1.0.0",
    description="Flashcard study core: SM-2 scheduling, learn sessions and a speech audio cache",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="studyset contributors",
    packages=find_packages(exclude=("tests", "tests.*")),
    py_modules=["config"],
    python_requires=">=3.11",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "studyset=studyset.delivery.study_cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="flashcards spaced-repetition sm2 tts cli education",
)
