from setuptools import setup, find_packages

setup(
    name='cluster-setup',
    version='0.1.0',
    packages=find_packages(),
    include_package_data=True,
    install_requires=[
        'typer',
        'rich',
        'kubernetes',
        'ansible',
        'python-dotenv',
        'PyYAML',
        'jsonschema',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'cluster-setup=clustersetup.cli:app'
        ]
    },
    description='Resumable end-to-end Kubernetes cluster provisioning pipeline',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX',
    ],
    python_requires='>=3.8',
)
