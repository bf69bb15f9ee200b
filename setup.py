from setuptools import setup, find_packages

setup(
    name="toolrelay",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*", "examples"]),
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.109.0",
        "uvicorn[standard]>=0.27.0",
        "httpx>=0.26.0",
        "python-dotenv>=1.0.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "boto3>=1.34.0",
    ],
    extras_require={
        "anthropic": ["anthropic>=0.40.0"],
        "openai": ["openai>=1.0.0"],
        "all": ["anthropic>=0.40.0", "openai>=1.0.0"],
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "anthropic>=0.40.0",
            "openai>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "toolrelay=toolrelay.server:main",
        ],
    },
    include_package_data=True,
    package_data={
        "toolrelay": ["integrations/*.json"],
    },
    description="Lets language models call declaratively described REST APIs",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
)
