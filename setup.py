from setuptools import setup, find_packages

# Read the contents of README.md for the long description
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="nomad_resource_collector",
    version="0.1.0",
    author="Nomad Resource Collector Team",
    author_email="team@nomad-resource-collector.example.com",
    description="Collects requested and observed resources of Nomad jobs across clusters",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/example/nomad_resource_collector",
    packages=find_packages(where=".", include=["nomad_resource_collector", "nomad_resource_collector.*"]),
    package_dir={"": "."},
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
    ],
    python_requires=">=3.8",
    install_requires=[
        "requests>=2.27.0",
        "PyYAML>=5.1",
    ],
    extras_require={
        "dev": [
            "pytest>=6.0",
            "pytest-cov>=2.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "nomad-resource-collector=nomad_resource_collector.main:main",
        ],
    },
)
