"""
Setup script for the Rekognition Tagger package.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read the README file
readme_path = Path(__file__).parent / "README.md"
long_description = readme_path.read_text(encoding="utf-8") if readme_path.exists() else ""

# Read requirements
requirements_path = Path(__file__).parent / "requirements.txt"
requirements = []
if requirements_path.exists():
    requirements = [
        line.strip()
        for line in requirements_path.read_text().splitlines()
        if line.strip() and not line.startswith("#")
    ]

setup(
    name="rekognition-tagger",
    version="1.0.0",
    description="AWS Rekognition enrichment and keyword search for media attachments",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Rekognition Tagger Team",
    author_email="your-email@example.com",
    url="https://github.com/your-username/rekognition-tagger",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Graphics",
        "Topic :: Scientific/Engineering :: Image Recognition",
    ],
    python_requires=">=3.11",
    install_requires=requirements,
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "black>=23.0.0",
            "isort>=5.12.0",
            "flake8>=6.0.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "rekognition-tagger=rekognition_tagger.main:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
    keywords="aws, rekognition, image-recognition, tagging, media-library, search",
    project_urls={
        "Bug Reports": "https://github.com/your-username/rekognition-tagger/issues",
        "Source": "https://github.com/your-username/rekognition-tagger",
    },
)
