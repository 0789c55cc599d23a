# This file is part of pyiktree,  distributed under license LGPL v3

''' Common lifecycle of the iterative solvers

	A host calls `Solver.solve()` periodically (typically once per frame). Each call executes a bounded number of iterations and commits the result on the joints, until the solver converges or exhausts its iteration budget. A change of the targets restarts the solving.

	.. code::

		solver = ChainSolver(chain, Target(vec3(15,0,0)))
		while not solver.solve():
			pass

	Concrete solvers implement

	- `_iterate()`  one step of the algorithm, returning True when converged (target reached or no more progress)
	- `_update()`   commit the working state onto the joints, if the algorithm works on a separate state
	- `_changed()`  True when the targets or the structure changed since the last reset
	- `_reset()`    rebuild the working state from the current joints and targets
'''

__all__ = ['Solver', 'KinematicError', 'check_chain']

import logging
from .mathutils import *
from . import settings

logger = logging.getLogger(__name__)


class KinematicError(Exception):
	''' raised when a solver is given a kinematic structure or a target it cannot work with '''
	pass


def snapshot(target) -> tuple:
	''' Copy of the current pose of a target, comparable with `==` '''
	if target is None:	return None
	return (vec3(target.position()), quat(target.orientation()))

def check_chain(joints) -> list:
	''' Check that the given joints form a direct chain, each joint being the reference of the next one '''
	joints = list(joints)
	if not joints:
		raise ValueError('a chain needs at least one joint')
	for parent, child in zip(joints, joints[1:]):
		if child.reference is not parent:
			raise ValueError('joints do not form a direct chain, {} is not the reference of {}'.format(parent, child))
	return joints


class Solver:
	''' Base class of iterative inverse kinematic solvers

		Attributes:
			error:            distance to the target under which the solver is converged
			max_iterations:   iteration budget after a reset
			min_distance:     change of an iteration under which the solver is stalled
			times_per_frame:  iterations per call to `solve()`, fractional values accumulate over calls

			iterations:       iterations done since the last reset, equal to `max_iterations` once converged
			last_iteration:   iterations actually executed before convergence or budget exhaustion
			frame_counter:    accumulated fraction of iterations to execute

		Default parameters are taken from `settings.solver`
	'''
	def __init__(self, error=None, max_iterations=None, min_distance=None, times_per_frame=None):
		defaults = settings.solver
		self.error = error if error is not None else defaults['error']
		self.max_iterations = max_iterations if max_iterations is not None else defaults['max_iterations']
		self.min_distance = min_distance if min_distance is not None else defaults['min_distance']
		self.times_per_frame = times_per_frame if times_per_frame is not None else defaults['times_per_frame']
		self.iterations = 0
		self.last_iteration = 0
		self.frame_counter = 0.
		self._force = False
		self._hooks = []

	@property
	def state(self) -> str:
		''' `'idle'` before any iteration since the last reset, `'converged'` when the solver has finished, `'iterating'` otherwise '''
		if self.iterations >= self.max_iterations:	return 'converged'
		if self.iterations == 0:	return 'idle'
		return 'iterating'

	def change(self, force=True):
		''' Force the solver to reset at its next tick, or cancel a forced reset '''
		self._force = force

	def solve(self) -> bool:
		''' Execute the iterations allowed for this tick and commit the result.
			Return True if the solver had already converged, in which case nothing is done
		'''
		if self._force or self._changed():
			self._restart()
		if self.iterations >= self.max_iterations:
			return True
		# diagnostics are only computed when somebody looks at them
		debug = logger.isEnabledFor(logging.DEBUG)
		self.frame_counter += self.times_per_frame
		while floor(self.frame_counter) > 0:
			if self._iterate():
				self.last_iteration = self.iterations
				self.iterations = self.max_iterations
				if debug:
					logger.debug('%s converged after %d iterations, residual %g', type(self).__name__, self.last_iteration, self.residual())
				if self._hooks:
					self._notify('converged', iteration=self.last_iteration, residual=self.residual())
				break
			self.frame_counter -= 1
			self.iterations += 1
			self.last_iteration = self.iterations
			if self._hooks:
				self._notify('iteration', iteration=self.iterations, positions=self.joint_positions(), residual=self.residual())
			if self.iterations >= self.max_iterations:
				if debug:
					logger.debug('%s exhausted its %d iterations, residual %g', type(self).__name__, self.max_iterations, self.residual())
				break
		self._update()
		return False

	def _restart(self):
		self._force = False
		self.iterations = 0
		self.last_iteration = 0
		self.frame_counter = 0.
		self._reset()
		logger.debug('%s reset', type(self).__name__)
		self._notify('reset')

	# event hooks

	def subscribe(self, callback):
		''' Register a callback `callback(event, **data)` called on `'reset'`, `'iteration'` and `'converged'` events.
			Callbacks are observers, they must not modify the joints or the targets
		'''
		if callback not in self._hooks:
			self._hooks.append(callback)

	def unsubscribe(self, callback):
		try:
			self._hooks.remove(callback)
		except ValueError:
			pass

	def _notify(self, event, **data):
		for callback in list(self._hooks):
			callback(event, **data)

	# diagnostics

	def residual(self) -> float:
		''' Current distance between end effectors and their targets '''
		raise NotImplementedError

	def joint_positions(self) -> list:
		''' Current world positions of the solved joints '''
		raise NotImplementedError

	# algorithm specific

	def _iterate(self) -> bool:
		raise NotImplementedError

	def _update(self):
		raise NotImplementedError

	def _changed(self) -> bool:
		raise NotImplementedError

	def _reset(self):
		raise NotImplementedError
