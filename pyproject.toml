[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "infraforge"
version = "0.1.0"
description = "Render Terraform configuration for cluster nodepools, load balancers and DNS records, and run terraform to build or destroy them."
requires-python = ">=3.10"
keywords = ["terraform", "kubernetes", "infrastructure", "nodepool", "dns", "cidr"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "jinja2",
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["infraforge"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
