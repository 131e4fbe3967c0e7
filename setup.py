"""
Setup script for bangla10-trainer.

Bangla10 is a ten-minute-a-day spaced-repetition trainer for spoken
Bangla. It ships two entry points:

1. The 'bangla10' terminal trainer (local SQLite progress, background sync)
2. The progress API (FastAPI) that stores one revisioned progress document
   in a KV or blob backend
"""

from setuptools import find_packages, setup

setup(
    name="bangla10-trainer",
    version="0.1.0",
    description="Ten-minute daily spaced-repetition trainer for spoken Bangla",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Bangla10",
    packages=find_packages(include=["bangla10", "bangla10.*"]),
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        # API
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
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
            "bangla10=bangla10.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning spaced-repetition cli education bangla",
)
