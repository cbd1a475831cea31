"""
CRM Enrichment - AI enrichment consensus and review engine
"""
from setuptools import find_packages, setup

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

with open("requirements-dev.txt", "r", encoding="utf-8") as fh:
    dev_requirements = [
        line.strip() for line in fh if line.strip() and not line.startswith("#") and not line.startswith("-r")
    ]

setup(
    name="crm-enrichment",
    version="0.1.0",
    description="Multi-provider AI enrichment with consensus scoring and per-field review for CRM clients",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.11",
    install_requires=requirements,
    extras_require={"test": dev_requirements},
    include_package_data=True,
    package_data={
        "": ["*.lua"],
    },
)
