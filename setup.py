from setuptools import setup, find_packages

with open('README.md', 'r', encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='pybal',
    version='0.1.0',
    author='SperidLabs',
    author_email='contact@speridlabs.com',
    description='Bundle Adjustment in the Large datasets and reprojection cost functions',
    long_description=long_description,
    long_description_content_type='text/markdown',
    url='https://github.com/speridlabs/pybal',
    packages=find_packages(exclude=['tests', 'tests.*']),
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.8',
    install_requires=[
        'numpy>=1.20.0',
        'scipy>=1.7.0',
    ],
    extras_require={
        'dev': [
            'pytest>=6.0',
        ],
        'autodiff': [
            'jax>=0.4.0',  # Differentiate the reprojection model
        ],
    },
)
