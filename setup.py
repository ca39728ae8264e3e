from setuptools import setup

with open("README.md", "r", encoding="utf-8") as fp:
    long_description = fp.read()

setup(
    name="lapis",
    version="1.0.0",
    description="Lapis is a module that installs Minecraft versions, with optional Fabric, Quilt, Forge or "
                "NeoForge mod loaders, and provides a small CLI to do so.",
    author="Lapis contributors",
    packages=["lapis"],
    python_requires=">=3.9",
    install_requires=["certifi"],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["lapis = lapis.cli:main"]},
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="GPL-3.0",
)
