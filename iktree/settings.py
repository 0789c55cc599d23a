'''	 The settings module holds dictionaries for each aspect of the iktree library.

dictionaries:
	:solver:       default parameters given to solvers at their creation
	:constraints:  numerical parameters of the constraints

The settings are loaded at import from the user configuration file if it exists.
'''

import sys, os, yaml
from os.path import dirname, exists, expanduser

# default parameters of every solver, can be overriden at solver creation
solver = {
	'error': 0.01,	# distance to the target under which a solver is considered converged
	'max_iterations': 50,	# maximum number of iterations before a solver gives up
	'min_distance': 0.01,	# change of a whole iteration under which the solver is considered stalled
	'times_per_frame': 5.,	# number of iterations executed by each call to `solve()`, can be fractional
	'subbase_epsilon': 1e-3,	# displacement of children centroid under which a sub-base is not rotated
	'keep_best': False,	# chain solvers restore their best iteration when giving up on a worse pose
	'keep_direction': False,	# FABRIK bones starting on constrained joints only partially turn toward their new direction
	'fix_twisting': False,	# chain solvers twist their joints toward the target every third iteration
	}

constraints = {
	'ellipse_iterations': 3,	# iterations of the closest point to ellipse search
	'field_epsilon': 0.3,	# distance field values under which an orientation is admissible
	}


# get configuration directory depending on OS
if sys.platform == 'win32':
	configdir = os.getenv('LOCALAPPDATA') or expanduser('~/AppData/Local')
else:
	configdir = os.getenv('XDG_CONFIG_HOME') or expanduser('~/.config')

config = configdir+'/iktree/pyiktree.yaml'
settings = {'solver':solver, 'constraints':constraints}


def install():
	''' Create and fill the config directory if not already existing '''
	if not exists(config):
		os.makedirs(dirname(config), exist_ok=True)
		dump()

def clean():
	''' Delete the default configuration file '''
	os.remove(config)

def load(file=None):
	''' Load the settings directly in this module, from the specified file or the default one

		Only the keys already known are updated, unknown keys in the file are ignored.
	'''
	if not file:	file = config
	if isinstance(file, str):
		with open(file, 'r') as f:
			changes = yaml.safe_load(f)
	else:
		changes = yaml.safe_load(file)
	def update(dst, src):
		for key in dst:
			if key in src:
				if isinstance(dst[key], dict) and isinstance(src[key], dict):
					update(dst[key], src[key])
				elif isinstance(dst[key], bool):	dst[key] = bool(src[key])
				elif isinstance(dst[key], int):		dst[key] = int(src[key])
				elif isinstance(dst[key], float):	dst[key] = float(src[key])
				else:
					dst[key] = src[key]
	if changes:
		update(settings, changes)

def dump(file=None):
	''' Save the current settings into the specified file or to the default one '''
	if not file:	file = config
	text = yaml.dump(settings, default_flow_style=None, width=40, indent=4)
	if isinstance(file, str):
		with open(file, 'w') as f:
			f.write(text)
	else:
		file.write(text)


try:
	load()
except FileNotFoundError:
	pass
