"""Setup configuration for the Carecord Discord bot."""

from setuptools import setup, find_packages

setup(
    name="carecord",
    version="0.0.1",
    description="A Discord companion bot with crisis detection and auto-moderation",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "py-cord>=2.5",
        "aiosqlite>=0.19",
        "openai>=1.40",
        "PyYAML>=6.0",
        "python-dotenv>=1.0",
        "prompt_toolkit>=3.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "carecord=carecord.main:main",
        ],
    },
)
