from setuptools import setup, find_packages

setup(
    name='kubeops',
    version='0.1.0',
    packages=find_packages(exclude=['kubeops.tests']),
    include_package_data=True,
    install_requires=[
        'typer[all]',
        'pyyaml',
        'paramiko',
        'pydantic>=2',
        'python-dotenv',
        'jsonschema',
        'tenacity',
        'kubernetes',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    entry_points={
        'console_scripts': [
            'kubeops=kubeops.cli:app'
        ]
    },
    description='Kubernetes cluster provisioning over SSH driven by task pipelines',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.8',
)
