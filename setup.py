from setuptools import setup, find_packages

setup(
    name='pagesense',
    version='0.1.0',
    license="Apache 2.0",
    description="PageSense: page perception and visual stability for remote Chromium browsers",
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        'playwright>=1.40',
        'aiohttp>=3.9',
        'numpy>=1.24',
        'Pillow>=10.0',
        'PyYAML>=6.0',
        'click>=8.1',
        'pydantic>=2.0',
        'python-dotenv>=1.0',
    ],
    extras_require={
        'test': [
            'pytest>=7.4',
            'pytest-asyncio>=0.23',
        ],
    },
    entry_points={
        'console_scripts': [
            'pagesense=pagesense.command.pagesense_cli:run',
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
    ],
    python_requires='>=3.9',
)
