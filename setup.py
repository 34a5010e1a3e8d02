"""Setup file for the blocker agent."""
from setuptools import setup, find_packages

import re
from pathlib import Path


def get_version() -> str:
    """Get version from version.py."""
    version_file = Path(__file__).parent / "version.py"
    if not version_file.exists():
        return "0.1.0"

    content = version_file.read_text()
    parts = re.findall(r"^VERSION_(?:MAJOR|MINOR|PATCH) = (\d+)", content, re.M)
    if len(parts) == 3:
        return ".".join(parts)
    return "0.1.0"


version = get_version()

setup(
    name="blocker-agent",
    version=version,  # Version is read from version.py
    python_requires=">=3.10",
    packages=find_packages(include=[
        "blocker",
        "blocker.*",
        "api",
        "api.*",
        "database",
        "database.*",
    ]),
    py_modules=["main", "version"],
    install_requires=[
        "fastapi>=0.100.0,<1.0.0",
        "uvicorn>=0.22.0,<1.0.0",
        "sqlalchemy[asyncio]>=2.0.0,<3.0.0",
        "aiosqlite>=0.19.0",
        "pydantic>=2.0.0,<3.0.0",
        "pydantic-settings>=2.0.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "httpx>=0.24.0",
        ],
    },
)
