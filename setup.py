from setuptools import setup, find_packages

setup(
    name="simplefact-sdk",
    version="1.0.0",
    description="Async Python SDK for the SimpleFact invoicing API",
    packages=find_packages(include=["simplefact", "simplefact.*"]),
    python_requires=">=3.10",
    install_requires=[
        "httpx>=0.27",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "respx>=0.21",
        ],
    },
)
