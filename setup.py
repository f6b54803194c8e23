from setuptools import setup, find_packages
setup(
    name="tax_appeal_comps",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages("src"),
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "httpx>=0.24",
        "pydantic>=2",
        "fastapi>=0.100",
    ],
    extras_require={
        "test": [
            "pytest>=7",
        ],
    },
    entry_points={
        'console_scripts': [
            'tax-appeal-comps=tax_appeal_comps.__main__:main'
        ]
    }
)
