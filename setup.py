"""Setup script for the DocAssist package."""

from setuptools import setup, find_namespace_packages

setup(
    name="docassist",
    version="0.1.0",
    packages=find_namespace_packages(include=["docassist", "docassist.*"]),
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn>=0.27",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "structlog>=24.1",
        "httpx>=0.26",
        "prometheus-client>=0.19",
        "asyncpg>=0.29",
        "SQLAlchemy>=2.0",
        "alembic>=1.13",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    description="DocAssist - multi-turn document assistant orchestration core",
    author="DocAssist Team",
)
