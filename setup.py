from setuptools import setup, find_packages

setup(
    name="hunk_review",
    version="0.1.0",
    packages=find_packages(include=["hunk_review", "hunk_review.*"]),
    install_requires=[
        "requests",
        "pyyaml",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "hunkreview=hunk_review.cli:main",
        ],
    },
    author="Uday Kanth",
    description="Review git changes hunk by hunk and apply only the accepted ones.",
)
