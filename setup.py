import setuptools

setuptools.setup(
    name="cluster-balancer",
    version="0.1.0",
    description="Searches for better replica placements of partitioned log clusters",
    python_requires=">=3.10",
    packages=setuptools.find_packages(exclude=("tests*",)),
    install_requires=[
        "pydantic>2.0",
        "scipy",
        "numpy",
        "isodate",
    ],
    extras_require={
        "test": ["pytest", "hypothesis"],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
    ],
    entry_points={
        "console_scripts": [
            "balance-plan = cluster_balancer.tools.balance:cli",
            "generate-scenario = cluster_balancer.tools.generate_scenario:cli",
        ]
    },
)
