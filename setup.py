from setuptools import setup

setup(
    name='atmfjstc-unzip',
    version='1.0.0',

    author_email='atmfjstc@protonmail.com',

    package_dir={'': 'src'},
    packages=['atmfjstc.lib.unzip'],

    install_requires=[
        'atmfjstc-archive-forensics>=0.4.1, <1',
        'atmfjstc-binary-utils>=1.2.0, <2',
        'atmfjstc-file-utils>=2.5',
    ],

    zip_safe=True,

    description="Lightweight read-only access to ZIP archives (Store and Deflate entries only)",

    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Topic :: System :: Archiving :: Compression",
        "Typing :: Typed",
    ],
    python_requires='>=3.7',
)
