# This file is part of pyiktree,  distributed under license LGPL v3

''' Forward And Backward Reaching Inverse Kinematics

	FABRIK works on a buffer of desired joint positions, with two passes per iteration

	- the *forward reaching* puts the end effector on the target, then walks the chain toward the head, moving each desired position on the line to its successor so that bone lengths are preserved. Only the buffer is changed.
	- the *backward reaching* anchors the head on its true position, then walks the chain toward the end effector, rotating each joint so that its child points to the desired position. The actual position of the child, once the joint constraint applied, replaces the desired one.

	Constraints are taken into account in the forward pass too: for cone, hinge and distance field constraints, the desired position of a joint is first corrected as if the rotation of its child was constrained.
'''

__all__ = ['Properties', 'FABRIKSolver', 'ChainSolver']

import logging
from .mathutils import *
from .constraints import ConeConstraint, Hinge, DistanceField
from .solver import Solver, KinematicError, check_chain, snapshot
from . import settings

logger = logging.getLogger(__name__)


class Properties:
	''' Per joint tuning of the FABRIK passes

		Attributes:
			use_constraint:        whether the joint constraint is applied by the solver
			fix_weight:            in `[0, 1]`, shortens the bone placed before the joint in the forward pass. 1 puts the joint on the desired position of its child
			use_direction_weight:  whether the forward pass keeps part of the current direction of the bone ending on this joint
			direction_weight:      in `[0, 1]`, fraction of the rotation toward the current bone direction applied by the direction heuristics
	'''
	__slots__ = 'use_constraint', 'fix_weight', 'use_direction_weight', 'direction_weight'
	def __init__(self, use_constraint=True, fix_weight=0., use_direction_weight=False, direction_weight=0.5):
		self.use_constraint = use_constraint
		self.fix_weight = fix_weight
		self.use_direction_weight = use_direction_weight
		self.direction_weight = direction_weight

	def __repr__(self):
		return 'Properties(use_constraint={}, fix_weight={}, use_direction_weight={}, direction_weight={})'.format(
				self.use_constraint, self.fix_weight, self.use_direction_weight, self.direction_weight)


class FABRIKSolver(Solver):
	''' Machinery shared by the solvers using forward and backward reaching

		Attributes:
			positions:       desired world positions of the joints of the chain being solved
			orientations:    world orientations of the joints after the last backward pass
			distances:       bone lengths, `distances[i]` between joint `i-1` and joint `i` (the head's reference for `i = 0`)
			keep_direction:  in both passes, bones starting on a constrained joint only partially turn toward their new direction, by the `direction_weight` of their end joint
	'''
	def __init__(self, keep_direction=None, **kwargs):
		super().__init__(**kwargs)
		self.keep_direction = keep_direction if keep_direction is not None else settings.solver['keep_direction']
		self._properties = {}
		self.positions = []
		self.orientations = []
		self.distances = []

	def properties(self, joint) -> Properties:
		''' Tuning of the given joint, created with default values on first access '''
		properties = self._properties.get(joint.index)
		if properties is None:
			properties = self._properties[joint.index] = Properties()
		return properties

	def set_fix_weight(self, weight):
		for joint in self._joints():
			self.properties(joint).fix_weight = weight

	def set_direction_weight(self, weight):
		''' Enable the direction heuristic of the forward pass on every joint, with the given weight '''
		for joint in self._joints():
			properties = self.properties(joint)
			properties.use_direction_weight = True
			properties.direction_weight = weight

	def _joints(self) -> list:
		raise NotImplementedError

	@staticmethod
	def move(u, v, span, fix_weight=0.) -> vec3:
		''' Point on the line from `u` to `v`, at `span` from `u`.
			`fix_weight` shortens the displacement from `u`. Coincident points give `v`
		'''
		r = distance(u, v)
		if not r > NUMPREC:
			return vec3(v)
		l = span / r * (1 - fix_weight)
		return u * (1 - l) + v * l

	@staticmethod
	def turn(vector, direction, weight) -> vec3:
		''' Rotate `vector` by `weight` times the rotation bringing it in `direction` '''
		return slerp(quat(), fromto(vector, direction), weight) * vector

	@staticmethod
	def untwist(chain, goal):
		''' Twist the joints around their bones, from the end effector to the head, so that the end effector turns toward `goal`.
			Small or ill-defined twists are skipped, and only part of each twist is applied
		'''
		end = chain[-1].position()
		for i in reversed(range(len(chain)-1)):
			joint = chain[i]
			axis = chain[i+1].translation
			if not length(axis) > NUMPREC:
				continue
			local_end = joint.location(end)
			v = noproject(local_end, axis)
			u = noproject(joint.location(goal), axis)
			threshold = 0.5 * length(local_end)
			if not (length(v) > threshold and length(u) > threshold):
				continue
			axis = normalize(axis)
			angle = atan2(dot(cross(v, u), axis), dot(v, u))
			if abs(angle) > radians(10):
				joint.rotate(angleAxis(0.7*angle, axis))
				end = chain[-1].position()

	def _buffer(self, chain):
		''' Initialize the working buffers from the current pose of `chain` '''
		reference = chain[0].reference
		previous = reference.position() if reference is not None else vec3(0)
		self.positions = []
		self.orientations = []
		self.distances = []
		for joint in chain:
			position = vec3(joint.position())
			bone = distance(previous, position)
			self.positions.append(position)
			self.orientations.append(quat(joint.orientation()))
			self.distances.append(bone if bone > NUMPREC else 0.)
			previous = position

	def _forward_reaching(self, chain) -> float:
		''' Move the desired positions from the end effector toward the head, the end effector being already placed.
			Return the sum of displacements of desired positions
		'''
		positions, distances = self.positions, self.distances
		change = 0.
		for i in reversed(range(len(chain)-1)):
			bone = distances[i+1]
			if not bone > 0:
				positions[i] = vec3(positions[i+1])
				continue
			previous = positions[i]
			properties = self.properties(chain[i+1])
			if (self.keep_direction and chain[i].constraint is not None) or properties.use_direction_weight:
				# partially keep the direction the bone has toward the current position of joint i+1
				positions[i] = positions[i+1] + self.turn(
						positions[i] - positions[i+1],
						positions[i] - chain[i+1].position(),
						properties.direction_weight)
			anchor = positions[i]
			if properties.use_constraint:
				anchor = self._constrain_forward(chain, i)
			positions[i] = self.move(positions[i+1], anchor, bone, self.properties(chain[i]).fix_weight)
			change += distance(previous, positions[i])
		return change

	def _constrain_forward(self, chain, i) -> vec3:
		''' Desired position of joint `i` corrected so that the rotation of joint `i+1` stays admissible '''
		joint = chain[i+1]
		o = self.positions[i]
		if i+2 >= len(chain) or not isinstance(joint.constraint, (ConeConstraint, Hinge, DistanceField)):
			return o
		p = self.positions[i+1]
		# current and desired directions to the neighbors, in the frame of joint i+1
		x = joint.displacement(chain[i].position() - joint.position())
		y = joint.displacement(chain[i+2].position() - joint.position())
		z = joint.displacement(self.positions[i+2] - p)
		w = joint.displacement(o - p)
		if not length(x) > NUMPREC:
			return o
		delta = fromto(z, y)
		w = delta * w
		constrained = joint.constraint.constrain_rotation(fromto(w, x), joint)
		anchor = inverse(delta) * (inverse(constrained) * (normalize(x) * length(w)))
		return joint.world_displacement(anchor) + p

	def _backward_reaching(self, chain, start=0) -> float:
		''' Rotate the joints from `start` toward the end effector so that each child reaches its desired position.
			`positions[start]` must be the true position of `chain[start]`.
			Return the sum of distances between the reached and the desired positions
		'''
		positions, distances = self.positions, self.distances
		reference = chain[0].reference
		orientation = quat(reference.orientation()) if reference is not None else quat()
		magnitude = reference.magnitude() if reference is not None else 1.
		for joint in chain[:start]:
			orientation = orientation * joint.rotation
			magnitude *= joint.scaling
		change = 0.
		previous = positions[start]
		for i in range(start, len(chain)-1):
			joint = chain[i]
			magnitude *= joint.scaling
			desired = positions[i+1]
			if self.keep_direction and joint.constraint is not None and distances[i+1] > 0:
				# partially keep the direction from the previous desired position of joint i
				positions[i+1] = positions[i] + self.turn(
						positions[i+1] - positions[i],
						positions[i+1] - previous,
						self.properties(chain[i+1]).direction_weight)
			previous = desired
			if not distances[i+1] > 0:
				positions[i+1] = vec3(positions[i])
				orientation = orientation * joint.rotation
				self.orientations[i] = orientation
				continue
			local = inverse(orientation * joint.rotation) * ((positions[i+1] - positions[i]) / magnitude)
			delta = fromto(chain[i+1].translation, local)
			if self.properties(joint).use_constraint:
				joint.rotate(delta)
			else:
				joint.rotation = normalize(joint.rotation * delta)
			orientation = orientation * joint.rotation
			self.orientations[i] = orientation
			actual = positions[i] + orientation * (chain[i+1].translation * magnitude)
			change += distance(actual, positions[i+1])
			positions[i+1] = actual
		return change


class ChainSolver(FABRIKSolver):
	''' FABRIK solver for a single chain

		Attributes:
			chain:             list of joints from the head to the end effector
			target:            object with `position()` and `orientation()` methods to reach with the end effector, or None
			target_direction:  optional direction, in the target frame, the last bone is oriented along
			keep_best:         when the solver finishes on a pose worse than the best one met, restore the best one
			best_distance:     end effector distance of the best pose met since the last reset
			fix_twisting:      every third iteration, twist the joints around their bones toward the target before the passes
	'''
	def __init__(self, chain, target=None, keep_best=None, fix_twisting=None, **kwargs):
		super().__init__(**kwargs)
		self.chain = check_chain(chain)
		self.target = target
		self.target_direction = None
		self.keep_best = keep_best if keep_best is not None else settings.solver['keep_best']
		self.fix_twisting = fix_twisting if fix_twisting is not None else settings.solver['fix_twisting']
		self._previous = snapshot(target)
		self._head = vec3(self.chain[0].position())
		self._initialize()

	def __repr__(self):
		return '<ChainSolver {} joints>'.format(len(self.chain))

	def _joints(self) -> list:
		return self.chain

	def set_target(self, end_effector, target):
		if end_effector is not self.chain[-1]:
			raise KinematicError('{} is not the end effector of this chain'.format(end_effector))
		self.target = target

	def length(self) -> float:
		''' Maximum reach of the chain from its head '''
		return sum(self.distances[1:])

	def residual(self) -> float:
		if self.target is None:	return 0.
		return distance(self.chain[-1].position(), self.target.position())

	def joint_positions(self) -> list:
		return [vec3(joint.position()) for joint in self.chain]

	def _initialize(self):
		self._buffer(self.chain)
		self.best_distance = self.residual() if self.target is not None else inf
		self.best = [quat(joint.rotation) for joint in self.chain]

	# passes usable by solvers combining several chains

	def reach_forward(self, goal) -> float:
		''' Place the end effector on `goal` and run the forward reaching '''
		self.positions[-1] = vec3(goal)
		return self._forward_reaching(self.chain)

	def reach_backward(self, start=0) -> float:
		''' Anchor the chain on its true position and run the backward reaching from joint `start` '''
		for i in range(start+1):
			self.positions[i] = vec3(self.chain[i].position())
		return self._backward_reaching(self.chain, start)

	def _aim(self, goal):
		# desired position of the joint before the end effector, so that the last bone follows the target direction
		if self.target_direction is None or len(self.chain) < 2:
			return
		direction = self.target.orientation() * vec3(self.target_direction)
		if not length(direction) > NUMPREC:
			return
		self.positions[-2] = goal - normalize(direction) * self.distances[-1]

	def _iterate(self) -> bool:
		if self.target is None:
			return True
		end = self.chain[-1]
		goal = vec3(self.target.position())
		if distance(end.position(), goal) <= self.error:
			return True
		if self.fix_twisting and self.iterations % 3 == 0:
			self.untwist(self.chain, goal)
			for i, joint in enumerate(self.chain):
				self.positions[i] = vec3(joint.position())
		self._aim(goal)
		self.reach_forward(goal)
		change = self.reach_backward()
		current = distance(end.position(), goal)
		if current < self.best_distance:
			self.best_distance = current
			self.best = [quat(joint.rotation) for joint in self.chain]
		return current <= self.error or change <= self.min_distance

	def restore_best(self):
		''' Set the joints back to the best pose met since the last reset '''
		for joint, rotation in zip(self.chain, self.best):
			joint.rotation = rotation

	def _update(self):
		if self.keep_best and self.iterations >= self.max_iterations and self.residual() > self.best_distance:
			self.restore_best()

	def _changed(self) -> bool:
		return snapshot(self.target) != self._previous or self.chain[0].position() != self._head

	def _reset(self):
		self._previous = snapshot(self.target)
		self._head = vec3(self.chain[0].position())
		self._initialize()
