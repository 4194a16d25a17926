from setuptools import setup, find_packages

setup(
    name="relata",
    version="0.1",
    author='Pavel Schudel',
    author_email='pavel1860@gmail.com',
    url='https://github.com/pavel1860/relata',
    description="Relationship queries, pivot tables and pagination for postgres models",
    packages=find_packages(include=["relata", "relata.*"]),
    install_requires=[
        "pydantic>=2.8.2, <3",
        "asyncpg>=0.29.0",
        "pytz>=2024.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "sqlparse>=0.5.0",
        ],
    },
    classifiers=[
        # Classifiers help users find your project by categorizing it.
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires='>=3.11',
)
