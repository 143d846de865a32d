'''
Base class and error type for the configuration objects.

Every configurable component takes its settings as keyword arguments of
its constructor, where they are checked once. Settings read from a plain
dictionary go through from_dict(), which refuses keys that are not known
options.

Provides:
      ConfigurationError
      Options()

'''
import inspect


class ConfigurationError(ValueError):
    '''Raised when a configuration is invalid (unknown option, bad value or
    a parameter vector of the wrong size).'''
    pass


class Options(object):
    '''Base class for configuration objects

    Subclasses declare their options as keyword arguments of __init__ and
    store them as attributes with the same names.

    Example
    -------

    >>> class GapOptions(Options):
    ...     def __init__(self, max_gap=1.):
    ...         self.max_gap = max_gap
    >>> GapOptions.from_dict(dict(max_gap=0.5))
    GapOptions(max_gap=0.5)
    '''

    @classmethod
    def option_names(cls):
        '''Returns the names of the options accepted by this class

        Returns
        -------
        tuple of str
            option names, in the order of the constructor arguments
        '''
        parameters = inspect.signature(cls.__init__).parameters
        return tuple(k for k, p in parameters.items()
                     if k != 'self' and p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY))

    @classmethod
    def from_dict(cls, options):
        '''Creates a configuration object from a dictionary

        Parameters
        ----------
        options : dict or None
            option names (case insensitive) and values

        Returns
        -------
        Options
            instance of the calling class

        Raises
        ------
        ConfigurationError
            if any of the keys is not an option of this class
        '''
        options = {k.lower(): v for k, v in (options or {}).items()}
        valid_names = cls.option_names()
        unknown = [k for k in options if k not in valid_names]
        if unknown:
            raise ConfigurationError("Invalid option(s) for {}: {}.".format(cls.__name__,
                                                                            ", ".join(unknown)))
        parameters = inspect.signature(cls.__init__).parameters
        missing = [k for k in valid_names
                   if parameters[k].default is inspect.Parameter.empty and k not in options]
        if missing:
            raise ConfigurationError("Missing option(s) for {}: {}.".format(cls.__name__,
                                                                            ", ".join(missing)))
        return cls(**options)

    def as_dict(self):
        return {k: getattr(self, k) for k in self.option_names()}

    def __repr__(self):
        s = ", ".join("{}={!r}".format(k, v) for k, v in self.as_dict().items())
        return "{}({})".format(self.__class__.__name__, s)
