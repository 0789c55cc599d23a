from iktree.mathutils import *
from iktree.frame import Skeleton


def arm(*translations, constraints=None):
	''' Build a chain in a new skeleton, the head at the origin and each joint offset from the previous one by the given translation '''
	constraints = constraints or {}
	skeleton = Skeleton()
	chain = [skeleton.add(constraint=constraints.get(0))]
	for i, translation in enumerate(translations):
		chain.append(skeleton.add(chain[-1], vec3(translation), constraint=constraints.get(i+1)))
	return chain

def random_rotation() -> quat:
	''' Uniformly distributed rotation, using numpy's random state '''
	import numpy as np
	w, x, y, z = np.random.normal(size=4)
	return normalize(quat(float(w), float(x), float(y), float(z)))
