from setuptools import setup, find_packages
from pathlib import Path


def read_readme():
    this_directory = Path(__file__).parent
    readme_file = this_directory / 'README.md'
    if readme_file.exists():
        return readme_file.read_text(encoding='utf-8')
    return ""


setup(
    name="poky-kv",
    version="0.3.0",
    description="Key-value client over PostgreSQL stored procedures.",
    long_description=read_readme(),
    long_description_content_type='text/markdown',
    packages=find_packages(include=['poky', 'poky.*']),
    python_requires=">=3.10",
    install_requires=[
        "psycopg[binary]>=3.1",
        "psycopg-pool>=3.2",
        "pydantic>=2.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: Database",
    ],
    keywords="postgres key-value stored-procedures connection-pool",
)
