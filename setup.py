from setuptools import setup, find_packages

setup(
    name="mkdocs-apitree",
    version="1.0.0",
    description="MkDocs plugin for C/C++ API reference trees",
    keywords="mkdocs apitree c cpp xml documentation python",
    packages=find_packages(exclude=["tests"]),
    install_requires=[
        "mkdocs>=1.4",
    ],
    extras_require={
        "test": ["pytest"],
    },
    classifiers = [
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Documentation",
        "Topic :: Software Development :: Documentation",
        "Framework :: MkDocs",
    ],
    entry_points={
        "mkdocs.plugins": [
            "apitree = mkdocs_apitree.plugin:ApitreePlugin",
        ],
        "console_scripts": [
            "apitree = mkdocs_apitree.cli:main",
        ],
    },
)
