#!/usr/bin/python3

from setuptools import setup, find_packages

setup(
	# package declaration
	name='pyiktree',
	version='0.1.0',
	python_requires='>=3.8',
	install_requires=[
		'pyglm>=2.5.5',
		'numpy>=1.1',
		'scipy>=1.6',
		'pyyaml>=5',
		],
	extras_require={
		'test': ['pytest>=6'],
		},
	# source declaration
	packages=find_packages(exclude=['tests', 'tests.*']),
	package_data={
		'': ['README.md'],
		},

	# metadata for pypi
	description="Inverse kinematics solvers (CCD, FABRIK) for chains and trees of constrained joints",
	long_description=open('README.md').read(),
	long_description_content_type='text/markdown',
	license='GNU LGPL v3',
	keywords='inverse kinematics IK FABRIK CCD skeleton joint constraint solver animation robotics',
	classifiers=[
		'Topic :: Scientific/Engineering',
		'Development Status :: 3 - Alpha',
		'Programming Language :: Python :: 3.8',
		'Programming Language :: Python :: 3.9',
		'Programming Language :: Python :: 3.10',
		'Programming Language :: Python :: Implementation :: CPython',
		'License :: OSI Approved :: GNU Lesser General Public License v3 (LGPLv3)',
		'Intended Audience :: Science/Research',
		'Intended Audience :: Developers',
		'Topic :: Scientific/Engineering :: Mathematics',
		'Topic :: Multimedia :: Graphics :: 3D Modeling',
		],
	)
