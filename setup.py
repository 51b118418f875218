from setuptools import setup, find_packages

setup(
    name="whmcs-assistant",
    version="1.0.0",
    description="WhatsApp assistant answering WHMCS billing questions through an OpenAI Assistant",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "fastapi>=0.110.0",
        "uvicorn[standard]>=0.24.0",
        "gunicorn>=21.2.0",
        "python-dotenv>=1.0.0",
        "openai>=1.30.0,<2",
        "httpx>=0.25.1",
        "pydantic>=2.4.2",
        "pydantic-settings>=2.1.0",
        "typing-extensions>=4.7.1",
        "structlog>=23.2.0",
        "tenacity>=8.2.3",
        "redis>=5.0.1",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    python_requires=">=3.11",
)
