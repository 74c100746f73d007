[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "shadowmesh"
version = "0.1.0"
description = "Shadow service helpers, port mapping and DNS resolution for a service mesh"
requires-python = ">=3.10"
dependencies = [
    "dnspython",
]
keywords = [
    "service-mesh",
    "kubernetes",
    "dns",
    "coredns",
    "kube-dns",
    "port-mapping",
    "smi",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Topic :: Internet :: Name Service (DNS)",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["shadowmesh"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
