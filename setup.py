import setuptools

# Read the long description from README.md
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setuptools.setup(
    name="fbxbin",
    version="0.1.0",
    description="A Python library for decoding binary FBX files into a tree of typed nodes",
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Topic :: Software Development :: Libraries",
        "Topic :: Multimedia :: Graphics :: 3D Modeling",
    ],
    package_dir={"": "lib"},
    py_modules=["fbxbin"],
    python_requires=">=3.8",
    install_requires=[
        "numpy>=1.15.0",
    ],
    extras_require={
        "test": ["pytest"],
    },
)
