"""Trading journal data layer for Supabase.

Install with ``pip install -e .`` (add ``[test]`` for the test suite).
"""

from pathlib import Path

from setuptools import find_packages, setup

setup(
    name="journalstore",
    packages=find_packages(include=["journalstore"]),
    version="0.1.0",
    description="Trading journal data layer: Supabase CRUD facades, auth and session bridge",
    long_description=Path("README.md").read_text(encoding="utf-8"),
    long_description_content_type="text/markdown",
    license="MIT",
    python_requires=">=3.12",
    install_requires=[
        "pydantic>=2.10.0",
        "pydantic-settings>=2.6.0",
        "structlog>=25.5.0",
        "orjson>=3.10.0",
        "supabase>=2.10.0",
        "postgrest>=0.18.0",
        "httpx>=0.27.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.3.0",
            "pytest-asyncio>=0.24.0",
            "python-dotenv>=1.0.0",
        ],
    },
    test_suite="tests",
)
