# This file is part of pyiktree,  distributed under license LGPL v3

''' Cyclic Coordinate Descent solver

	Each iteration sweeps the chain from the joint before the end effector down to the head. Every joint in turn is rotated so that the end effector points toward the target, as seen from that joint. The rotations are applied immediately, so joints closer to the head see the effect of the ones already processed.
'''

__all__ = ['CCDSolver']

import logging
from .mathutils import *
from .solver import Solver, KinematicError, check_chain, snapshot

logger = logging.getLogger(__name__)


class CCDSolver(Solver):
	''' Cyclic Coordinate Descent on a single chain

		Attributes:
			chain:   list of joints from the head to the end effector
			target:  object with `position()` and `orientation()` methods to reach with the end effector, or None
	'''
	def __init__(self, chain, target=None, **kwargs):
		super().__init__(**kwargs)
		self.chain = check_chain(chain)
		self.target = target
		self._previous = snapshot(target)

	def __repr__(self):
		return '<CCDSolver {} joints>'.format(len(self.chain))

	def set_target(self, end_effector, target):
		if end_effector is not self.chain[-1]:
			raise KinematicError('{} is not the end effector of this chain'.format(end_effector))
		self.target = target

	def residual(self) -> float:
		if self.target is None:	return 0.
		return distance(self.chain[-1].position(), self.target.position())

	def joint_positions(self) -> list:
		return [vec3(joint.position()) for joint in self.chain]

	def _iterate(self) -> bool:
		if self.target is None:
			return True
		end = self.chain[-1]
		goal = vec3(self.target.position())
		if distance(end.position(), goal) <= self.error:
			return True
		change = 0.
		for joint in reversed(self.chain[:-1]):
			previous = joint.rotation
			joint.rotate(fromto(joint.location(end.position()), joint.location(goal)))
			change += qangle(inverse(previous) * joint.rotation)
		return distance(end.position(), goal) <= self.error or change <= self.min_distance

	def _update(self):
		# rotations are applied in place during iterations
		pass

	def _changed(self) -> bool:
		return snapshot(self.target) != self._previous

	def _reset(self):
		self._previous = snapshot(self.target)
