#!/usr/bin/env python3
"""
Setup script for spawnsql.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text() if readme_file.exists() else ""

setup(
    name="spawnsql",
    version="0.1.0",
    description="Templated SQL migrations with content-addressed, pinned components",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="spawnsql Contributors",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={
        "spawnsql.engine": ["migrations/*/up.sql"],
    },
    include_package_data=True,
    python_requires=">=3.11",
    install_requires=[
        "click>=8.1.0",
        "jinja2>=3.1.0",
        "markupsafe>=2.1.0",
        "PyYAML>=6.0",
        "tomli-w>=1.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "spawn=spawnsql.cli.__main__:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Database",
        "Topic :: Software Development :: Build Tools",
    ],
    keywords="sql migrations postgres jinja2 templates",
)
