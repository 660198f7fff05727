#!/usr/bin/env python3
"""
krunk Setup Configuration
Declarative chaos scenarios for Kubernetes test clusters
"""

from setuptools import setup, find_packages


def read_requirements(path):
    with open(path, "r", encoding="utf-8") as fh:
        return [line.strip() for line in fh if line.strip() and not line.startswith("#")]


with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="krunk",
    version="0.1.0",
    description="Run declarative failure-injection scenarios against Kubernetes test clusters",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Testing",
        "Topic :: System :: Clustering",
        "Operating System :: POSIX",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=read_requirements("config/requirements.txt"),
    extras_require={
        "test": read_requirements("config/requirements-test.txt"),
    },
    entry_points={
        "console_scripts": [
            "krunk=krunk.cli:main",
        ],
    },
    include_package_data=True,
    keywords="chaos kubernetes minikube kind k3d failure-injection",
)

#setup.py ends here
