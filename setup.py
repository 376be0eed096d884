from setuptools import find_packages, setup

tests_require = [
    'delegator.py>=0.1.1',
    'pytest>=7.0',
    'retrying>=1.3.3',
]

setup(
    name='gentx-check',
    version='0.2.0',
    packages=find_packages('src'),
    package_dir={'': 'src'},
    python_requires='>=3.8',
    install_requires=[
        'psutil>=5.9',
    ],
    entry_points='''
        [console_scripts]
        check-genesis=gentx_check.cli:run
    ''',
    tests_require=tests_require,
    extras_require={
        'test': tests_require,
        'test_utils': tests_require,
    }
)
