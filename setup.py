from setuptools import setup, find_packages
from pathlib import Path

readme_path = Path(__file__).parent / "README.md"
if readme_path.exists():
    long_description = readme_path.read_text(encoding="utf-8")
else:
    long_description = "An asyncio flow execution engine for typed node graphs with streaming previews and per-branch failure isolation."

setup(
    name="nodeflow",
    version="0.3.0",
    author="nodeflow contributors",
    description="Asyncio execution engine for node/edge flow graphs",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.8",
    install_requires=[
        "networkx>=3.1",
        "pyyaml>=6.0",
        "jsonschema>=4.20.0",
        "fsspec>=2023.1.0",
        "typer>=0.9.0",
        "httpx>=0.25.0",  # Backend calls for generation executors
    ],
    entry_points={
        "console_scripts": [
            "nodeflow=nodeflow.cli:main",
        ],
    },
    extras_require={
        "dev": [
            "pytest",
            "pytest-asyncio>=0.21",
            "coverage",
            "hypothesis",
            "parameterized==0.9.0",
        ],
        "storage-s3": ["s3fs"],
        "storage-gcs": ["gcsfs"],
        "storage-azure": ["adlfs"],
    },
)
