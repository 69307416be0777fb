"""
termlink - interactive SSH shell client with pluggable host key verification.
"""

from setuptools import setup, find_packages
from pathlib import Path

readme = Path(__file__).parent / "README.md"
long_description = readme.read_text() if readme.exists() else ""

setup(
    name="termlink",
    version="0.1.0",
    description="Interactive SSH shell client with pluggable host key verification",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["termlink", "termlink.*"]),
    python_requires=">=3.10",
    install_requires=[
        "paramiko>=3.2.0",
        "cryptography>=41.0.0",
        "PyYAML>=6.0",
        "click>=8.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "black>=23.0.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "termlink=termlink.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Networking",
        "Topic :: System :: Shells",
    ],
    keywords="ssh terminal paramiko shell",
)
