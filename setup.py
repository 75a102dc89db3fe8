"""
Setup script for fastrev-engine.

fastrev-engine is the adaptive learning core of the FastRev Kids
platform. It decides, for any student at any moment:

1. Which competence to unlock (prerequisite-aware competence graph)
2. How an exercise attempt moves mastery (multi-axis evaluator)
3. When a competence must be revised (spaced-repetition scheduler)

The 'fastrev' command exposes curriculum validation and scheduling
previews for curriculum authors and operators.
"""

from setuptools import find_packages, setup

setup(
    name="fastrev-engine",
    version="1.0.0",
    description="Adaptive learning engine: competence graph, mastery evaluation and spaced revision",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="FastRev Kids",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Curriculum documents
        "pyyaml>=6.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "fastrev=fastrev.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning spaced-repetition mastery curriculum education adaptive",
)
