"""
Setup script for the docrepo project.

Allows development installation with `pip install -e .`
Test dependencies: `pip install -e .[test]`
"""

from setuptools import setup, find_packages

setup(
    name="docrepo",
    version="0.1.0",
    packages=find_packages(include=["docrepo", "docrepo.*"]),
    python_requires=">=3.11",
    install_requires=[
        "pymongo>=4.6",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "PyJWT>=2.8",
        "bcrypt>=4.1",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
        ],
    },
)
