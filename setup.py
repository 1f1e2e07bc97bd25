from setuptools import setup, find_packages

setup(
    name='pathfinder-pad',
    version='0.1.0',
    description='Terminal viewer that jumps to the files and URLs mentioned in text',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    author='Siergej Sobolewski',
    author_email='s.sobolewski@hotmail.com',
    url='https://github.com/yourusername/pathfinder-pad',
    packages=find_packages(exclude=['tests', 'tests.*']),
    install_requires=[
        'pygments>=2.13.0',
        'toml>=0.10.2',
        'wcwidth>=0.2.6',
        'chardet>=5.0.0',
        'aiohttp>=3.9.0',
    ],
    extras_require={
        'test': ['pytest>=7.0'],
    },
    entry_points={
        'console_scripts': [
            'pathfinder-pad = pathfinder_pad.pathfinder:main'
        ]
    },
    include_package_data=True,
    package_data={'pathfinder_pad': ['config.toml']},
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: GNU General Public License v3 (GPLv3)',
        'Programming Language :: Python :: 3.11',
    ],
    python_requires='>=3.11',
    license='GPLv3',
)
