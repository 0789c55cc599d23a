# This file is part of pyiktree,  distributed under license LGPL v3

''' This module defines the constraints restricting the motion of joints

	A constraint is any object attached to a `Joint` implementing the following signature, the joint calls it on every rotation or translation it receives:

		class SomeConstraint:

			# return the admissible part of a rotation `delta` about to be composed to `joint.rotation`
			def constrain_rotation(self, delta: quat, joint) -> quat:
				...
			# return the admissible part of a translation `delta` about to be added to `joint.translation`
			def constrain_translation(self, delta: vec3, joint) -> vec3:
				...

	Constraints are pure functions of their inputs, they never modify the joint themselves.

	Most constraints work in a *rest frame*: the joint rotation is taken relative to an *idle* rotation (the joint's rotation at rest), then expressed in a frame whose Z axis is the twist axis of the joint.
'''

__all__ = [
	'Constraint', 'Hinge', 'ConeConstraint', 'BallAndSocket', 'PlanarPolygon', 'DistanceField',
	'rest_rotation', 'ellipse_closest',
	]

import logging, math
import numpy as np
from scipy.ndimage import map_coordinates
from scipy.spatial.transform import Rotation

from .mathutils import *
from . import settings

logger = logging.getLogger(__name__)


def rest_rotation(normal=Y, axis=Z) -> quat:
	''' Rotation bringing Z onto `axis` and Y onto the part of `normal` orthogonal to `axis` '''
	delta = fromto(Z, axis)
	normal = inverse(delta) * vec3(normal)
	angle = anglebt(normal, Y)
	if dot(cross(Y, normal), Z) < 0:
		angle = -angle
	return normalize(delta * angleAxis(angle, Z))


class Constraint(object):
	''' Base class for constraints, it lets rotations free and restricts translations according to `translation`

		Attributes:
			translation:  translation policy, one of

				- `'free'`       no restriction
				- `'axis'`       only translations along `direction`
				- `'plane'`      only translations orthogonal to `direction`
				- `'forbidden'`  no translation

			direction:   unit vector in the joint's rotated frame, used by `'axis'` and `'plane'`
	'''
	translation = 'free'
	direction = Z

	def set_translation(self, policy, direction=None):
		''' Change the translation policy. A null direction for `'axis'` or `'plane'` makes the translation free '''
		if policy not in ('free', 'axis', 'plane', 'forbidden'):
			raise ValueError('unknown translation policy {}'.format(repr(policy)))
		self.translation = policy
		if policy in ('axis', 'plane'):
			direction = vec3(direction) if direction is not None else vec3(0)
			if not length(direction) > NUMPREC:
				logger.warning('null vector for %s translation constraint, translation becomes free', policy)
				self.translation = 'free'
			else:
				self.direction = normalize(direction)

	def constrain_rotation(self, delta, joint) -> quat:
		return delta

	def constrain_translation(self, delta, joint) -> vec3:
		if self.translation == 'free':
			return delta
		elif self.translation == 'forbidden':
			return vec3(0)
		direction = joint.rotation * self.direction
		if self.translation == 'axis':
			return project(delta, direction)
		else:
			return noproject(delta, direction)


class Hinge(Constraint):
	''' Rotation around a single axis, with the signed angle limited to `[min, max]`

		The angle is measured from the idle rotation `reference`, around `axis`, starting from `normal`. Any rotation component orthogonal to the axis is rejected.

		Attributes:
			min, max:  angular window in radians, `min <= max`
			idle:      joint rotation at rest
			rest:      rotation from the hinge frame to the joint frame, its Z axis is the hinge axis
	'''
	translation = 'forbidden'

	def __init__(self, min=-pi, max=pi, reference=None, normal=Y, axis=Z):
		if min > max:
			raise ValueError('hinge min angle must be lower than max angle')
		self.min = min
		self.max = max
		self.set_rest(reference if reference is not None else quat(), normal, axis)

	def __repr__(self):
		return '{}({}, {})'.format(type(self).__name__, self.min, self.max)

	def set_rest(self, reference, normal=Y, axis=Z):
		''' Set the idle rotation and the hinge axis, both in the joint's reference frame '''
		self.idle = quat(reference)
		self.rest = rest_rotation(normal, axis)

	@property
	def orientation(self) -> quat:
		''' hinge frame in the joint's reference frame '''
		return self.idle * self.rest

	def angle(self, joint) -> float:
		''' Current signed hinge angle of the joint '''
		return twistangle(inverse(self.orientation) * joint.rotation * self.rest, Z)

	def constrain_rotation(self, delta, joint) -> quat:
		frame = self.orientation
		desired = inverse(frame) * joint.rotation * delta * self.rest
		angle = clampangle(twistangle(desired, Z), self.min, self.max)
		return normalize(inverse(joint.rotation) * frame * angleAxis(angle, Z) * inverse(self.rest))


class ConeConstraint(Constraint):
	''' Base for ball and socket like constraints, limiting the swing of the joint's twist axis and the twist around it

		The rotation relative to `idle` is expressed in the rest frame and decomposed in swing and twist, the swing direction is restricted by `apply()` (to be implemented by subclasses) and the twist angle clamped to `[min_twist, max_twist]`.

		Attributes:
			idle:       joint rotation at rest
			rest:       rotation from the cone frame to the joint frame, its Z axis is the twist axis
			offset:     additional rotation of the joint frame before the decomposition
			min_twist, max_twist:  signed twist window in radians
	'''
	translation = 'forbidden'

	def __init__(self, reference=None, normal=Y, axis=Z, offset=None, min_twist=-pi, max_twist=pi):
		if min_twist > max_twist:
			raise ValueError('min twist angle must be lower than max twist angle')
		self.min_twist = min_twist
		self.max_twist = max_twist
		self.set_rest(reference if reference is not None else quat(), normal, axis, offset)

	def set_rest(self, reference, normal=Y, axis=Z, offset=None):
		''' Set the idle rotation and the cone axis, both in the joint's reference frame.
			`offset` is a direction the cone axis is tilted to
		'''
		self.idle = quat(reference)
		self.rest = rest_rotation(normal, axis)
		self.offset = fromto(axis, offset) if offset is not None else quat()

	def set_twist(self, min, max):
		if min > max:
			raise ValueError('min twist angle must be lower than max twist angle')
		self.min_twist = min
		self.max_twist = max

	@property
	def orientation(self) -> quat:
		''' cone frame in the joint's reference frame '''
		return self.idle * self.rest

	def decompose(self, joint) -> tuple:
		''' Current `(direction, twist)` of the joint in the cone frame '''
		local = inverse(self.rest) * inverse(self.idle) * joint.rotation * self.offset * self.rest
		swing, twist = swingtwist(local, Z)
		return swing * Z, twistangle(twist, Z)

	def apply(self, direction) -> vec3:
		''' Return the admissible direction the nearest to `direction`, both expressed in the cone frame '''
		raise NotImplementedError('cone constraints must implement apply()')

	def contains(self, direction, tolerance=1e-9) -> bool:
		''' Tell whether the direction (in the cone frame) is admissible '''
		return distance(normalize(self.apply(direction)), normalize(direction)) <= tolerance

	def constrain_rotation(self, delta, joint) -> quat:
		local = inverse(self.rest) * inverse(self.idle) * joint.rotation * delta * self.offset * self.rest
		swing, twist = swingtwist(local, Z)
		swing = fromto(Z, self.apply(swing * Z))
		angle = clampangle(twistangle(twist, Z), self.min_twist, self.max_twist)
		change = swing * angleAxis(angle, Z)
		return normalize(inverse(joint.rotation) * self.orientation * change * inverse(self.rest) * inverse(self.offset))


def ellipse_closest(a, b, x, y, iterations=None) -> vec2:
	''' Approximate point the closest to `(x,y)` on the ellipse of semi axes `a` (along x) and `b` (along y), centered on the origin

		The search is done in the first quadrant, starting at 45 degrees, then mirrored to the point's quadrant.
	'''
	if iterations is None:	iterations = settings.constraints['ellipse_iterations']
	px, py = abs(x), abs(y)
	tx = ty = 0.7071067811865476
	for _ in range(iterations):
		ex = (a*a - b*b) * tx**3 / a
		ey = (b*b - a*a) * ty**3 / b
		rx, ry = a*tx - ex, b*ty - ey
		qx, qy = px - ex, py - ey
		r = math.hypot(rx, ry)
		q = math.hypot(qx, qy)
		if not q > NUMPREC:
			break
		tx = min(1, max(0, (qx * r/q + ex) / a))
		ty = min(1, max(0, (qy * r/q + ey) / b))
		t = math.hypot(tx, ty)
		tx, ty = tx/t, ty/t
	return vec2(math.copysign(a*tx, x), math.copysign(b*ty, y))


class BallAndSocket(ConeConstraint):
	''' Elliptic cone constraint

		The swing is limited by 4 angles from the cone axis: toward -Y (`down`), +Y (`up`), -X (`left`) and +X (`right`). At each height, admissible directions are inside the ellipse whose semi axes are the tangents of those angles. When both limits of a quadrant exceed 90 degrees, the back of the cone becomes admissible outside the mirrored ellipse.
	'''
	def __init__(self, down=pi/4, up=pi/4, left=pi/4, right=pi/4, **kwargs):
		super().__init__(**kwargs)
		self.down = down
		self.up = up
		self.left = left
		self.right = right

	def __repr__(self):
		return '{}({}, {}, {}, {})'.format(type(self).__name__, self.down, self.up, self.left, self.right)

	def _bounds(self, direction) -> tuple:
		return (self.right if direction.x >= 0 else self.left,
				self.up if direction.y >= 0 else self.down)

	def apply(self, direction) -> vec3:
		l = length(direction)
		if not l > NUMPREC:
			return direction
		xbound, ybound = self._bounds(direction)
		h = max(abs(direction.z), NUMPREC*l)
		limit = pi/2 - 1e-6
		if direction.z > 0:
			a = max(h*tan(min(xbound, limit)), NUMPREC*l)
			b = max(h*tan(min(ybound, limit)), NUMPREC*l)
			if (direction.x/a)**2 + (direction.y/b)**2 <= 1:
				return direction
			p = ellipse_closest(a, b, direction.x, direction.y)
			return normalize(vec3(p.x, p.y, direction.z)) * l
		elif xbound > pi/2 and ybound > pi/2:
			# back of the cone, admissible outside the mirrored ellipse
			a = max(h*tan(pi - xbound), NUMPREC*l)
			b = max(h*tan(pi - ybound), NUMPREC*l)
			if (direction.x/a)**2 + (direction.y/b)**2 >= 1:
				return direction
			p = ellipse_closest(a, b, direction.x, direction.y)
			return normalize(vec3(p.x, p.y, direction.z)) * l
		else:
			# behind a cone opened less than 90 degrees, fold back to the front
			a = max(h*tan(min(xbound, limit)), NUMPREC*l)
			b = max(h*tan(min(ybound, limit)), NUMPREC*l)
			p = ellipse_closest(a, b, direction.x, direction.y)
			return normalize(vec3(p.x, p.y, h)) * l

	def contains(self, direction, tolerance=1e-9) -> bool:
		l = length(direction)
		if not l > NUMPREC:
			return True
		xbound, ybound = self._bounds(direction)
		h = abs(direction.z)
		limit = pi/2 - 1e-6
		if direction.z > 0:
			a = h*tan(min(xbound, limit))
			b = h*tan(min(ybound, limit))
			return math.hypot(direction.x/max(a, NUMPREC*l), direction.y/max(b, NUMPREC*l)) <= 1 + tolerance
		elif xbound > pi/2 and ybound > pi/2:
			a = h*tan(pi - xbound)
			b = h*tan(pi - ybound)
			return math.hypot(direction.x/max(a, NUMPREC*l), direction.y/max(b, NUMPREC*l)) >= 1 - tolerance
		return False


class PlanarPolygon(ConeConstraint):
	''' Cone constraint with a polygonal section

		Admissible directions are those crossing the plane `z = height` inside the polygon given by `vertices` (2D points in the cone frame).
	'''
	def __init__(self, vertices, height=1., **kwargs):
		super().__init__(**kwargs)
		self.height = height
		self.set_vertices(vertices)

	def __repr__(self):
		return '{}({} vertices, {})'.format(type(self).__name__, len(self.vertices), self.height)

	def set_vertices(self, vertices):
		vertices = np.array([(float(v[0]), float(v[1])) for v in vertices], dtype=float).reshape(-1, 2)
		if len(vertices) < 3:
			raise ValueError('a polygon needs at least 3 vertices')
		self.vertices = vertices
		self._min = vertices.min(axis=0)
		self._max = vertices.max(axis=0)

	def set_angle(self, angle):
		''' Scale the polygon so that its farthest vertex is at `angle` from the cone axis '''
		radius = np.linalg.norm(self.vertices, axis=1).max()
		if not radius > NUMPREC:
			return
		self.set_vertices(self.vertices * (self.height * tan(angle) / radius))

	def inside(self, point) -> bool:
		''' Ray casting test of a 2D point against the polygon '''
		x, y = point
		if x < self._min[0] or x > self._max[0] or y < self._min[1] or y > self._max[1]:
			return False
		v = self.vertices
		w = np.roll(v, 1, axis=0)
		crossing = (v[:,1] > y) != (w[:,1] > y)
		with np.errstate(divide='ignore', invalid='ignore'):
			xs = (w[:,0] - v[:,0]) * (y - v[:,1]) / (w[:,1] - v[:,1]) + v[:,0]
		return np.count_nonzero(crossing & (x < xs)) % 2 == 1

	def closest(self, point) -> np.ndarray:
		''' Point of the polygon boundary the closest to the given 2D point '''
		point = np.asarray(point, dtype=float)
		v = self.vertices
		w = np.roll(v, 1, axis=0)
		edge = v - w
		square = np.einsum('ij,ij->i', edge, edge)
		t = np.divide(np.einsum('ij,ij->i', edge, point - w), square, out=np.zeros(len(v)), where=square > 0)
		projection = w + edge * np.clip(t, 0, 1)[:,None]
		return projection[np.argmin(np.linalg.norm(projection - point, axis=1))]

	def _section(self, direction) -> tuple:
		l = length(direction)
		z = direction.z
		if not abs(z) > NUMPREC*l:
			z = NUMPREC*l
		alpha = abs(self.height / z)
		return z, alpha, np.array([alpha*direction.x, alpha*direction.y])

	def apply(self, direction) -> vec3:
		l = length(direction)
		if not l > NUMPREC:
			return direction
		z, alpha, projection = self._section(direction)
		behind = z * self.height < 0
		if not behind and self.inside(projection):
			return direction
		p = self.closest(projection) / alpha
		return normalize(vec3(p[0], p[1], -z if behind else z)) * l

	def contains(self, direction, tolerance=1e-9) -> bool:
		l = length(direction)
		if not l > NUMPREC:
			return True
		z, alpha, projection = self._section(direction)
		if z * self.height < 0:
			return False
		if self.inside(projection):
			return True
		return np.linalg.norm(self.closest(projection) - projection) <= tolerance * max(1, alpha)


class DistanceField(Constraint):
	''' Generic constraint on the whole joint orientation, defined by a distance to the admissible set over euler angles

		`field` is either

		- a 3D array sampling the distance over `[0, 2pi)^3` euler angles (`order` convention of `scipy.spatial.transform.Rotation`), linearly interpolated and periodic
		- a callable `field(angles: ndarray) -> float` giving the distance for any euler angles

		An orientation whose distance is above `epsilon` is projected twice along the normalized gradient of the distance.
	'''
	translation = 'forbidden'

	def __init__(self, field, epsilon=None, order='xyz'):
		self.epsilon = epsilon if epsilon is not None else settings.constraints['field_epsilon']
		self.order = order
		if callable(field):
			self.function = field
			self.field = None
		else:
			self.function = None
			self.field = np.asarray(field, dtype=float)
			if self.field.ndim != 3:
				raise ValueError('a distance field must be a 3 dimensional array, not {}'.format(self.field.ndim))
			steps = 2*pi / np.array(self.field.shape)
			self.gradients = np.stack([
				(np.roll(self.field, -1, axis) - np.roll(self.field, 1, axis)) / (2*steps[axis])
				for axis in range(3)])

	def __repr__(self):
		if self.field is not None:
			return '{}(field{})'.format(type(self).__name__, self.field.shape)
		return '{}({})'.format(type(self).__name__, self.function)

	def euler(self, orientation) -> np.ndarray:
		''' Euler angles in `[0, 2pi)` of a quaternion '''
		angles = Rotation.from_quat([orientation.x, orientation.y, orientation.z, orientation.w]).as_euler(self.order)
		return np.mod(angles, 2*pi)

	def orientation(self, angles) -> quat:
		''' Quaternion of euler angles '''
		x, y, z, w = Rotation.from_euler(self.order, angles).as_quat()
		return quat(w, x, y, z)

	def _sample(self, grid, angles) -> float:
		coords = (angles / (2*pi) * np.array(grid.shape)).reshape(3, 1)
		return float(map_coordinates(grid, coords, order=1, mode='grid-wrap')[0])

	def distance(self, angles) -> float:
		''' Distance to the admissible set, for the given euler angles '''
		if self.field is None:
			return float(self.function(np.asarray(angles, dtype=float)))
		return self._sample(self.field, angles)

	def gradient(self, angles, step=1e-4) -> np.ndarray:
		''' Gradient of the distance with respect to euler angles '''
		angles = np.asarray(angles, dtype=float)
		if self.field is None:
			gradient = np.empty(3)
			for i in range(3):
				offset = np.zeros(3)
				offset[i] = step
				gradient[i] = (self.distance(angles + offset) - self.distance(angles - offset)) / (2*step)
			return gradient
		return np.array([self._sample(grid, angles) for grid in self.gradients])

	def contains(self, orientation) -> bool:
		return self.distance(self.euler(orientation)) < self.epsilon

	def apply(self, orientation) -> quat:
		''' Nearest admissible orientation '''
		angles = self.euler(orientation)
		if self.distance(angles) < self.epsilon:
			return orientation
		for _ in range(2):
			gradient = self.gradient(angles)
			norm = np.linalg.norm(gradient)
			if not norm > NUMPREC:
				break
			angles = np.mod(angles - gradient / norm * self.distance(angles), 2*pi)
		return self.orientation(angles)

	def constrain_rotation(self, delta, joint) -> quat:
		return normalize(inverse(joint.rotation) * self.apply(joint.rotation * delta))
