"""Setup file for development installation."""

from setuptools import setup, find_packages

setup(
    name="theology-guide-chat",
    version="0.1.0",
    description="Chat client for an AI theology guide backed by a realtime document store",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "google-api-core",
        "httpx",
        "opentelemetry-instrumentation-fastapi",
        "prometheus-client",
        "pydantic>=2",
        "structlog",
    ],
    extras_require={
        "firestore": ["google-cloud-firestore"],
        "test": ["pytest", "pytest-asyncio"],
    },
) 
