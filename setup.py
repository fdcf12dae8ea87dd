import os
from setuptools import setup, find_packages

setup(
    name="fedvault",
    version="1.0.0",
    description="Privacy-preserving aggregation service for federated learning",
    long_description=open("README.md").read() if os.path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="fedvault",
    packages=find_packages(include=["fedvault", "fedvault.*"]),
    install_requires=[
        "httpx>=0.24.0",
        "click>=8.0.0",
        "cryptography>=41.0.0",
        "fastapi>=0.100.0",
        "pydantic>=2.0.0",
    ],
    extras_require={
        "serve": [
            "uvicorn[standard]>=0.20.0",
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "pytest-asyncio>=0.21.0",
            "uvicorn[standard]>=0.20.0",
        ],
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "pytest-asyncio>=0.21.0",
            "ruff>=0.4.0",
            "uvicorn[standard]>=0.20.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "fedvault=fedvault.cli:main",
        ],
    },
    python_requires=">=3.9",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
